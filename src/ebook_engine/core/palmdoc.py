"""PalmDOC (LZ77-family) decompression for MOBI/AZW text records.

The output buffer doubles as the back-reference window. Back-references copy
one byte at a time so that overlapping runs (distance < length) repeat the
bytes produced earlier in the same copy. Malformed input never reads or
writes out of bounds: truncated literal runs and unreachable
back-references are cut short.
"""


def decompress_palmdoc(data: bytes) -> bytes:
    """Decompress one PalmDOC-compressed record.

    Byte codes:
        0x00          literal NUL
        0x01-0x08     copy the next N bytes literally
        0x09-0x7F     literal byte
        0x80-0xBF     back-reference: 14-bit distance over both bytes,
                      length ((b0 >> 3) & 7) + 3
        0xC0-0xFF     space followed by (byte ^ 0x80)
    """
    out = bytearray()
    size = len(data)
    i = 0

    while i < size:
        c = data[i]

        if 1 <= c <= 8:
            end = min(i + 1 + c, size)
            out += data[i + 1:end]
            i += 1 + c
        elif c < 0x80:
            out.append(c)
            i += 1
        elif c < 0xC0:
            if i + 1 >= size:
                break
            pair = (c << 8) | data[i + 1]
            distance = pair & 0x3FFF
            length = ((c >> 3) & 0x07) + 3
            start = max(0, len(out) - distance)
            for j in range(length):
                pos = start + j
                if pos >= len(out):
                    break
                out.append(out[pos])
            i += 2
        else:
            out.append(0x20)
            out.append(c ^ 0x80)
            i += 1

    return bytes(out)

"""Text preparation for speech synthesis."""

from ebook_engine.tts.replacements import (
    DEFAULT_RULES,
    ReplacementProcessor,
    add_replacement,
    apply_replacements,
    dump_rules,
    is_valid_rules,
    list_replacements,
    load_rules,
    remove_replacement,
)
from ebook_engine.tts.splitter import (
    MAX_CHUNK_SIZE,
    extract_text_from_html,
    find_chunk_at_position,
    split_into_paragraphs,
)

__all__ = [
    # Splitting
    "MAX_CHUNK_SIZE",
    "extract_text_from_html",
    "find_chunk_at_position",
    "split_into_paragraphs",
    # Replacements
    "DEFAULT_RULES",
    "ReplacementProcessor",
    "add_replacement",
    "apply_replacements",
    "dump_rules",
    "is_valid_rules",
    "list_replacements",
    "load_rules",
    "remove_replacement",
]

"""Constants for keyphrase routes."""

DEFAULT_RECENT_LOCATIONS = 10
MAX_RECENT_LOCATIONS = 50

KEYPHRASE_NOT_FOUND_DETAIL = "Keyphrase not found"
KEYPHRASE_ADDED_MESSAGE = "Keyphrase added."
MAIN_TERM_SET_MESSAGE = "Main term updated."
KEYWORD_TYPE_SET_MESSAGE = "Keyphrase type updated."
KEYPHRASE_DELETED_MESSAGE = "Keyphrase deleted."

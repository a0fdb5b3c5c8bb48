# /flowbot/config/rules.py

# Word tables shared by plugins and the task library.
# Matching is case-insensitive; keep every entry lowercase.

AFFIRMATIVE_RESPONSES = {"yes", "sure", "ok", "okay", "yep", "y", "yeah", "correct", "right"}
NEGATIVE_RESPONSES = {"no", "nope", "nah", "n", "wrong", "incorrect"}

# Settings plugin trigger vocabulary
SETTINGS_COMMANDS = ["change", "modify", "switch", "alter", "add", "remove", "delete"]
SETTINGS_OBJECTS = ["card", "address", "calendar"]

# Settings plugin keyword handlers, in registration order: (word_type, words)
CARD_OBJECTS = {"card"}
CHANGE_COMMANDS = {"change", "modify", "delete", "switch", "alter"}
CALENDAR_OBJECTS = {"calendar", "cal", "schedule", "rota"}
ADDRESS_OBJECTS = {"address", "addr"}

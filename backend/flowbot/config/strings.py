# /flowbot/config/strings.py

# This file contains all user-facing strings, making them easy to manage,
# update, and eventually localize without changing engine logic.

# Host
GENERIC_FAILURE = "Sorry, something went wrong on my end. Please try again in a moment."

# Settings plugin
ADD_CARD = "You can add your card securely here: {url}"
CHANGE_CARD = "You can change your cards securely here: {url}"
CHANGE_CALENDAR = "You can connect your Google calendar on your profile: {url}"

# Task library
ADDRESS_PROMPT = "What's your {noun}?"
ADDRESS_INVALID = "Sorry, that doesn't look like a full address. Please include the street number and city."
ADDRESS_CONFIRM = "Is this right? {address}"
ADDRESS_RETRY = "No problem, let's try again."
ADDRESS_SAVED = "Great, I've saved your {noun}."

CONFIRMATION_RETRY = "Sorry, I need a yes or a no."

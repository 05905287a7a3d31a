"""
Test suite for the Chant Reminder.

This package contains tests for all core functionality including:
- Canonicalization, mantra indexing and the match engine
- The listening session state machine and its reminders
- Mantra recording and scripted replays
- Speech and reminder adapters (without audio hardware or network)
- Configuration and the command-line interface
"""

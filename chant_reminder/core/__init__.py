"""
Core functionality for the Chant Reminder.

This package contains the main logic for:
- Phonetic canonicalization and mantra indexing
- Match / mismatch decisions on speech fragments
- The listening session and mantra recording controllers
- Speech sources, reminder output and scheduling
- Configuration management
"""

"""
HabitForge backend package.

A FastAPI service persisting users and habits, with a pure streak and
statistics engine (``habitforge.streaks``) behind the completion and stats
endpoints.
"""

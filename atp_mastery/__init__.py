"""
ATP mastery engine.

Per-skill mastery tracking, exam-readiness gating, budgeted daily planning
and SM-2 review scheduling for ATP bar exam preparation.
"""

__version__ = "1.0.0"

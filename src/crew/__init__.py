"""Crew Score engine: cohort-relative member engagement scoring."""

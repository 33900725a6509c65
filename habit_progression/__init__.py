"""Progression engine for a gamified habit tracker: streaks, holidays, streak savers, tiers and XP"""

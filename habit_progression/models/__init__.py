"""Typed records for habits, holidays, streak savers, tiers and groups"""

"""
playerbase: players grouped into teams, stored in SQLite, observed live.
"""

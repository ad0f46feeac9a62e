"""
HealthTrack Backend Application Package

Health records, goals and reminders, behavioral event tracking and
micro-behavior pattern analytics served over a FastAPI application.
"""

from .health import health_types, health_records, health_goals, health_reminders

__all__ = ["health_types", "health_records", "health_goals", "health_reminders"]

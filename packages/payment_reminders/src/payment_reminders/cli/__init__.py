"""Payment reminders CLI."""

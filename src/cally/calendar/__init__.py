"""Calendar module -- events, recurrence, external calendar sync and video rooms.

Provides the CalendarEventModel table, Pydantic event schemas and recurrence
rules, CalendarEventRepository, CalendarEventService (create / update /
delete with series handling), CalendarSyncService for Google and Outlook,
and VideoConferenceService for 100ms, Zoom and Google Meet rooms.
"""

"""Meeting transcripts module -- recording control and the transcription pipeline.

Provides the meeting_transcripts table and the shared video room index,
TranscriptRepository, RecordingService (100ms start / stop) and
TranscriptionProcessor (download, transcribe, summarize).
"""

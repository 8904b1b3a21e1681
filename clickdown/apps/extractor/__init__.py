"""
Extractor App - Checkpointed ClickUp Task Extraction

Responsibilities:
- Walk a workspace (spaces, folders, lists) or a single list
- Paginate tasks per list, active first and then archived
- Retry transient failures with incremental backoff, wait out rate limits
- Resolve custom-field values to display text
- Grow the output header as new custom fields are discovered
- Suspend on a time budget and resume from a persisted checkpoint

Output:
- SQLite table (OUTPUT_DB_PATH): header in sink_columns, rows in task_rows
"""

"""Python client for the Task Tracker API: session, HTTP glue and dashboard state."""

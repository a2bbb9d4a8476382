"""LINE member registration backend."""

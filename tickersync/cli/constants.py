"""Exit codes shared by CLI commands."""

SUCCESS_EXIT_CODE = 0
SYSTEM_EXIT_CODE = 1
VALIDATION_EXIT_CODE = 2
STORAGE_EXIT_CODE = 3
EXPORT_EXIT_CODE = 4

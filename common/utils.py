UUID_PATTERN = "[0-9a-fA-F-]{36}"

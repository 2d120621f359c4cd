"""Language-model client, message schema and prompts."""

"""AIVA: assistant orchestration and autonomy core."""

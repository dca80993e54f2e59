"""Policy analysis: prompts, providers, response parsing and the analyze pipeline."""

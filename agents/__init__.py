"""Model-backed agents: reply parsing, transport, plan decoding and enrichment."""

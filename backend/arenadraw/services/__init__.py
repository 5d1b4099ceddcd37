"""
Services Layer

Pure engine logic plus the DB-backed operations built on it:
- Pure modules (partitioning, pairing, set rules, stats, standings,
  bracket construction, points) take plain values and return dataclasses
- DB modules (match_ledger, advancement_service, stage_service) take a
  Session and mutate only the Match Ledger and the records it owns
- Nothing here depends on HTTP request/response objects
"""

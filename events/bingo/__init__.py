# Bingo engine package
"""
Tile requirement evaluation and effect resolution for bingo events.

- requirements / calculators / aggregator: fold game events into tile progress
- closure: decide completion, points and completed lines
- tile_progress: the per-tile transactional pipeline
- effects / resolution: the effect ledger and its activation rules
- notifications: outbound notification contract and Discord delivery
"""

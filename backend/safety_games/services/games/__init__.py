"""Safety mini-game services.

Engines (hazard, matching), the session clock, scoring, the firm catalog,
best-score persistence and the live session registry/timers. Routes and
socket handlers call into here; nothing in this package knows about HTTP.
"""

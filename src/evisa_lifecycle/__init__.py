"""
evisa_lifecycle — e-visa application lifecycle and eligibility engine.

Validates applicant data against a visa-type catalog, numbers and stores
applications, drives them through the review state machine and folds
outcomes back into per-visa-type statistics.

Built on the Railway-Oriented Programming (ROP) primitives in
`evisa_lifecycle.railway` for explicit, composable error handling.
"""

__version__ = "0.1.0"

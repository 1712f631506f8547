"""
Map Localization Test Suite

Structure:
- unit/: Unit tests for individual components (fakes for device and predictor)
- integration/: Full map sessions against the simulated pan/zoom device
"""

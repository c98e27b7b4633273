"""Test package for the Chess Vision Trainer.

Core tests drive the session with a fake clock and fixed or seeded rounds.
UI smoke tests run pygame with the SDL dummy drivers, so no window opens.
Run ``pytest`` from the project root.
"""

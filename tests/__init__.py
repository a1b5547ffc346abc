"""Test package for the voice math trainer.

Core tests drive the voice/session state machines with a fake clock and
scripted speech ports, so no audio device or real time is involved.  UI
smoke tests run pygame with the SDL dummy drivers.  Run ``pytest`` from
the project root.
"""

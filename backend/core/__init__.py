"""Core shared logic for chart overlays and signals.

This package contains pure business logic with no I/O dependencies
(no Redis or network access). The tracker service layer (tracker/)
feeds it price series and hands its output to renderers.
"""

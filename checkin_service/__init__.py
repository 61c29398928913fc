"""
Check-in Service - Staff Enrollment and Face Check-in

A modular Python service that enrolls staff through a quality-gated multi-angle
capture flow and checks them in at a kiosk by consensus over external face
recognition oracles.
"""

__version__ = "1.0.0"
__author__ = "Check-in Service Team"

"""
Core Package.

Contains the reusable analysis machinery shared by every detector:
- Program model (parsed units, symbol identity, type descriptors)
- Diagnostics and the suppression layer
- Flow-sensitive state tracker
- Detector contract, registry and the lint engine
"""

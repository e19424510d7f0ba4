"""
Application Layer

Orchestrates nodes, players and the host's voice signalling.

Structure:
- services/: PlayerSession and SessionManager
- interfaces/: Port interfaces for infrastructure adapters
"""

"""FTP protocol engine for wireftp.

This module handles the control/data dual-channel protocol:
- LineFramer / parse_reply: control-channel framing and reply parsing
- CommandDispatcher: one-command-at-a-time request/reply matching
- ControlSession: connection setup and USER/PASS handshake
- PassiveDataChannel / TransferOrchestrator: PASV data transfers
- PathResolver: ensure-directory logic
- FTPClient: caller-facing facade
- Exceptions: FTP-specific error types
"""

"""
codeclaw.core — permission bridge, session/concurrency control, and daemon.

Modules:
    approval/   Pending approvals, reply classification, correlation store
    trust       Per-conversation trusted action kinds
    tasks       Single-task-per-conversation registry
    sessions    Continuation tokens for resuming agent context
    bridge      Permission bridge (approval prompt round-trips)
    browser     Read-only file browser for the chat
    engine      Task engine interface and the claude-agent-sdk adapter
    runner      Task lifecycle orchestration
    router      Inbound message routing and chat commands
    daemon      Top-level process lifecycle
    config      Configuration loading (TOML + env vars)
    logging     Logging setup
"""

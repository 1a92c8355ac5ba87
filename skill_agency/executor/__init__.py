"""Execution engine for skill workflows.

Takes a workflow template plus user decisions and runs its skills phase by
phase, streaming progress to whoever holds the session's channel.

Architecture (bottom-up):
- step_runner: Runs one step of a skill (manifest-writing runner built in)
- skill_runner: Validates, dry-runs and executes a single skill as an event stream
- execution_log: Execution records, status transitions, rollback tokens
- session_manager: Session lifecycle, progress counts, cancellation, rollback audit
- channel: Bounded event stream between a driver thread and a client
- orchestration: Phase-by-phase workflow execution in a background thread
"""

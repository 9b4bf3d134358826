"""Opinionated default constants for taskgate.

Keep conservative defaults here. Callers may override behavior via
arguments or ``RunnerConfig``, but centralizing values avoids magic numbers
spread through the codebase.
"""

# Worker threads are named "<prefix>-<index>"
THREAD_NAME_PREFIX = "WorkerThread"

# Parked workers must not keep the interpreter alive
DAEMON_THREADS = True

# Simulated work sleeps in chunks of at most this many seconds, checking for
# cancellation in between.
SLEEP_CHUNK_SECONDS = 0.1

# Environment overrides
TIME_SCALE_ENV = "TASKGATE_TIME_SCALE"
DAEMON_THREADS_ENV = "TASKGATE_DAEMON_THREADS"

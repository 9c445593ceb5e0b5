"""otp-runner monitoring — log windows and status display.

Modules
-------
log_tail
    ``LogTail`` keeps the most recent lines of engine output and answers
    the readiness/failure marker queries supervisors poll with.
renderer
    ``StatusRenderer`` turns a status file into Rich renderables for
    terminal display, including continuous ``Rich.Live`` mode.
"""

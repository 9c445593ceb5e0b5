"""Engine invocation — command lines and process handles.

Modules
-------
commands
    Builds ``java -jar ...`` argument lists for the build and serve phases
    from the manifest and the engine profile of its OTP version.
process
    ``ProcessHandle`` Protocol plus attached (build) and detached (serve)
    implementations.
"""

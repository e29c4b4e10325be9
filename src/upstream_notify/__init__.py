"""Upstream committer notification.

Works out which source-code committers should hear about a build: the
authors of every change in every upstream build that, directly or through
a chain of triggers, caused the job to run since its last successful build.
"""

__version__ = "0.1.0"

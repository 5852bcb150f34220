"""project-compass: workspace project navigator and task runner.

Scans a workspace for project manifests, classifies each directory into a
project type, infers runnable commands and supervises them as background
tasks with buffered output.
"""

__version__ = "0.4.0"

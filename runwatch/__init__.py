"""Store pipeline and task runs as results and records, and delete completed runs."""

__version__ = "0.1.0"
__all__ = [
    "annotation",
    "config",
    "convert",
    "dynamic",
    "labels",
    "leaderelection",
    "objects",
    "pipelinerun",
    "results",
    "taskrun",
]
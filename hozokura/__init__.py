from .pipeline import BuildResult, ProjectPaths, run_build

__all__ = ["BuildResult", "ProjectPaths", "run_build"]

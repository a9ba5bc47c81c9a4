from mgmtcore.api.branches import Branch, BranchesApi
from mgmtcore.api.projects import CreateProjectRequest, Project, ProjectsApi, ProjectStatus

__all__ = [
    "Branch",
    "BranchesApi",
    "CreateProjectRequest",
    "Project",
    "ProjectsApi",
    "ProjectStatus",
]

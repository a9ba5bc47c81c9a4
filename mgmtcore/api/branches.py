"""
Preview branch endpoints of the management API.
"""

from pydantic import BaseModel

from mgmtcore.api.base import BaseResourceApi


class Branch(BaseModel):
    id: str
    name: str
    project_ref: str
    status: str
    persistent: bool = False
    git_branch: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class BranchesApi(BaseResourceApi[Branch]):
    """Preview branches of a project. Branch lists are cached per project."""

    model = Branch

    async def list_branches(self, ref: str) -> list[Branch]:
        data = await self.orchestrator.cached_fetch(
            "branches",
            ref,
            lambda: self.orchestrator.enhanced_fetch(f"/projects/{ref}/branches"),
        )
        return self._to_models(data)

    async def create_branch(self, ref: str, name: str, git_branch: str | None = None) -> Branch:
        payload = {"name": name}
        if git_branch:
            payload["git_branch"] = git_branch

        data = await self.orchestrator.mutate(
            f"/projects/{ref}/branches",
            json_data=payload,
            invalidate=[("branches", ref)],
            context="create branch",
        )
        return self._to_model(data)

    async def delete_branch(self, ref: str, branch_id: str) -> None:
        await self.orchestrator.mutate(
            f"/projects/{ref}/branches/{branch_id}",
            method="DELETE",
            invalidate=[("branches", ref)],
            context="delete branch",
        )

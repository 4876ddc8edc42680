# Gushfile.py
# Example workflow definitions: fetch a repository, run checks in parallel, publish.
from __future__ import annotations

import subprocess

from gush import Job, Workflow, WorkflowRegistry

registry = WorkflowRegistry()


class Checkout(Job):
    def work(self):
        return {"repo": self.payload["repo"], "ref": self.payload.get("ref", "HEAD")}


class Command(Job):
    """Runs payload["cmd"] in a shell; a non-zero exit fails the job."""

    def work(self):
        proc = subprocess.run(self.payload["cmd"], shell=True, text=True, capture_output=True)
        if proc.returncode != 0:
            raise RuntimeError(f"exit={proc.returncode}: {proc.stderr[-2000:]}")
        return proc.stdout[-2000:]


class Lint(Command):
    pass


class Test(Command):
    pass


class Publish(Job):
    def work(self):
        return {"published": sorted(self.params)}


@registry.register("release")
class Release(Workflow):
    def configure(self, repo, ref="HEAD"):
        self.run(Checkout, payload={"repo": repo, "ref": ref})
        self.run(Lint, after=Checkout, payload={"cmd": "ruff check ."})
        self.run(Test, after=Checkout, payload={"cmd": "pytest -q"})
        self.run(Publish, after=[Lint, Test])

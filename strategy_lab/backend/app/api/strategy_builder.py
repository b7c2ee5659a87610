"""Strategy Builder endpoints: node kinds, graph linting and condition previews."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from strategy_lab.backend.core.conditions.rendering import RenderContext, conditions_preview, expression_to_string
from strategy_lab.backend.core.graph.lint import GraphLinter, LintIssue
from strategy_lab.backend.core.graph.registry import catalog

router = APIRouter(prefix="/strategy-builder", tags=["strategy-builder"])

linter = GraphLinter()


class GraphIn(BaseModel):
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)


class LintResponse(BaseModel):
    valid: bool
    issues: List[LintIssue]


class PreviewRequest(BaseModel):
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    globalVariables: List[Dict[str, Any]] = Field(default_factory=list)
    conditions: Optional[List[Dict[str, Any]]] = None
    expression: Optional[Dict[str, Any]] = None


class PreviewResponse(BaseModel):
    conditionsPreview: Optional[str] = None
    expressionPreview: Optional[str] = None


@router.get("/node-types")
def list_node_types() -> List[Dict[str, Any]]:
    """Return every node kind with its role and connection rules."""

    return catalog()


@router.post("/lint", response_model=LintResponse)
def lint_graph(payload: GraphIn) -> LintResponse:
    """Lint a node/edge snapshot."""

    issues = linter.lint(payload.nodes, payload.edges)
    return LintResponse(valid=not any(issue.severity == "error" for issue in issues), issues=issues)


@router.post("/preview", response_model=PreviewResponse)
def preview(payload: PreviewRequest) -> PreviewResponse:
    """Render condition groups and/or an expression using the graph's start node metadata."""

    context = RenderContext.from_graph(payload.nodes, payload.globalVariables)
    response = PreviewResponse()
    if payload.conditions is not None:
        response.conditionsPreview = conditions_preview(payload.conditions, context)
    if payload.expression is not None:
        response.expressionPreview = expression_to_string(payload.expression, context)
    return response


__all__ = ["router"]

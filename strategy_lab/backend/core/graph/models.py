"""Strategy graph domain models."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import AliasChoices, Field, SerializeAsAny, field_validator, model_validator

from strategy_lab.backend.core.base_models import WireModel
from strategy_lab.backend.core.conditions.factories import create_root_group
from strategy_lab.backend.core.conditions.models import Expression, GroupCondition


class NodeType(str, Enum):
    """Closed set of node kinds a strategy graph may contain."""

    START = "startNode"
    ENTRY = "entryNode"
    EXIT = "exitNode"
    SIGNAL = "signalNode"
    ENTRY_SIGNAL = "entrySignalNode"
    EXIT_SIGNAL = "exitSignalNode"
    ACTION = "actionNode"
    ALERT = "alertNode"
    END = "endNode"
    FORCE_END = "forceEndNode"
    SQUARE_OFF = "squareOffNode"
    MODIFY = "modifyNode"
    RETRY = "retryNode"
    REENTRY_SIGNAL = "reEntrySignalNode"
    STRATEGY_OVERVIEW = "strategyOverview"


VIRTUAL_OVERVIEW_NODE_ID = "strategy-overview-virtual"


def now_ms() -> int:
    return int(time.time() * 1000)


class XYPosition(WireModel):
    x: float = 0.0
    y: float = 0.0


class OptionDetails(WireModel):
    expiry: str = "W0"
    strike_type: str = "ATM"
    strike_value: Optional[float] = None
    option_type: Literal["CE", "PE"] = "CE"


class TrailingConfig(WireModel):
    enabled: bool = False
    price_move: float = 1.0
    trail_price: float = 0.5
    units: str = "points"
    trail_type: Literal["position", "underlying"] = "position"

    @model_validator(mode="before")
    @classmethod
    def _migrate_movement_type(cls, value: Any) -> Any:
        # Older documents stored the unit under movementType.
        if isinstance(value, dict) and "units" not in value:
            value = dict(value)
            value["units"] = value.pop("movementType", None) or "points"
        return value


class ReEntryConfig(WireModel):
    enabled: bool = False
    max_entries: int = 1
    current_re_entry_count: int = 0


class RetryConfig(WireModel):
    group_number: int = 1
    max_entries: int = 1


class Position(WireModel):
    """Virtual position opened by an action node; `vpi` is unique across the strategy."""

    id: Optional[str] = None
    vpi: str
    vpt: str = ""
    priority: int = 1
    position_type: Literal["buy", "sell"] = "buy"
    order_type: Literal["market", "limit"] = "market"
    limit_price: Optional[float] = None
    lots: Optional[int] = None
    quantity: int = 1
    multiplier: int = 1
    product_type: str = "intraday"
    max_entries: int = 1
    option_details: Optional[OptionDetails] = None
    trailing_config: Optional[TrailingConfig] = None
    re_entry: Optional[ReEntryConfig] = None
    source_node_id: Optional[str] = None
    status: Optional[str] = None

    @property
    def is_option(self) -> bool:
        return self.option_details is not None


def default_position(node_id: str, index: int = 0) -> Dict[str, Any]:
    """Wire form of the `index`-th default position of an entry node."""

    return {
        "vpi": f"{node_id}-pos{index + 1}",
        "vpt": "",
        "priority": index + 1,
        "positionType": "buy",
        "orderType": "market",
        "quantity": 1,
        "multiplier": 1,
        "productType": "intraday",
        "maxEntries": 1,
        "optionDetails": {"expiry": "W0", "strikeType": "ATM", "optionType": "CE"},
    }


class NodeVariable(WireModel):
    """Snapshot variable: a named expression captured when its node executes."""

    id: str
    name: str
    expression: Expression
    node_id: str


class TrailingVariable(WireModel):
    id: str
    name: str
    type: Literal["trailing"] = "trailing"
    position_id: str
    config: TrailingConfig


class GlobalVariable(WireModel):
    id: str
    name: str
    initial_value: Optional[Any] = None
    description: Optional[str] = None


class GlobalVariableUpdate(WireModel):
    """Assignment of a strategy-wide variable performed when the owning node runs."""

    id: str
    global_variable_id: str
    global_variable_name: str
    expression: Expression


def _root_groups() -> List[GroupCondition]:
    return [create_root_group()]


class NodeData(WireModel):
    label: str = ""
    last_updated: int = Field(
        default=0,
        validation_alias=AliasChoices("lastUpdated", "_lastUpdated", "last_updated"),
        serialization_alias="lastUpdated",
    )


class StartNodeData(NodeData):
    timeframe: Optional[str] = None
    exchange: Optional[str] = None
    symbol: Optional[str] = None
    trading_instrument: Optional[Dict[str, Any]] = None
    trading_instrument_config: Optional[Dict[str, Any]] = None
    supporting_instrument_config: Optional[Dict[str, Any]] = None
    indicators: Dict[str, Any] = Field(default_factory=dict)


class ConditionNodeData(NodeData):
    """Shared shape of every node that owns a list of root condition groups."""

    conditions: List[GroupCondition] = Field(default_factory=_root_groups)
    variables: List[NodeVariable] = Field(default_factory=list)

    @field_validator("conditions", mode="before")
    @classmethod
    def _wrap_single_group(cls, value: Any) -> Any:
        # Early signal nodes stored one {type, operator, conditions} object instead of a list.
        if isinstance(value, dict):
            logic = str(value.get("groupLogic") or value.get("operator") or "AND").upper()
            return [
                {
                    "id": value.get("id") or "root",
                    "groupLogic": logic if logic in ("AND", "OR") else "AND",
                    "conditions": value.get("conditions") or [],
                }
            ]
        return value


class SignalNodeData(ConditionNodeData):
    pass


class ActionNodeData(NodeData):
    action_type: Optional[str] = None
    positions: List[Position] = Field(default_factory=list)
    variables: List[NodeVariable] = Field(default_factory=list)
    trailing_variables: List[TrailingVariable] = Field(default_factory=list)
    global_variable_updates: List[GlobalVariableUpdate] = Field(default_factory=list)


class EntryNodeData(ActionNodeData):
    pass


class ExitNodeData(ActionNodeData):
    exit_type: str = "specific"
    exit_condition: Dict[str, Any] = Field(default_factory=lambda: {"type": "positionExit", "params": {}})
    exit_node_data: Optional[Dict[str, Any]] = None


class ModifyNodeData(ActionNodeData):
    target_position_id: Optional[str] = None
    target_node_id: Optional[str] = None
    modifications: Dict[str, Any] = Field(default_factory=dict)


class AlertNodeData(ActionNodeData):
    alert_message: str = "Strategy alert"
    alert_type: str = "info"
    send_email: bool = False
    send_sms: bool = False
    send_push: bool = True


class RetryNodeData(ConditionNodeData):
    action_type: Optional[str] = None
    retry_config: RetryConfig = Field(default_factory=RetryConfig)
    target_node_id: Optional[str] = None


class ReEntrySignalNodeData(ConditionNodeData):
    retry_config: RetryConfig = Field(default_factory=RetryConfig)
    target_entry_node_id: Optional[str] = None


class EndNodeData(NodeData):
    pass


class ForceEndNodeData(NodeData):
    close_positions: bool = True


class SquareOffNodeData(NodeData):
    message: str = "Strategy forcibly stopped - all positions closed"
    end_conditions: Dict[str, Any] = Field(default_factory=dict)


class OverviewNodeData(NodeData):
    is_virtual: bool = True
    is_strategy_overview: bool = True


DATA_MODELS: Dict[NodeType, Type[NodeData]] = {
    NodeType.START: StartNodeData,
    NodeType.ENTRY: EntryNodeData,
    NodeType.EXIT: ExitNodeData,
    NodeType.SIGNAL: SignalNodeData,
    NodeType.ENTRY_SIGNAL: SignalNodeData,
    NodeType.EXIT_SIGNAL: SignalNodeData,
    NodeType.ACTION: ActionNodeData,
    NodeType.ALERT: AlertNodeData,
    NodeType.END: EndNodeData,
    NodeType.FORCE_END: ForceEndNodeData,
    NodeType.SQUARE_OFF: SquareOffNodeData,
    NodeType.MODIFY: ModifyNodeData,
    NodeType.RETRY: RetryNodeData,
    NodeType.REENTRY_SIGNAL: ReEntrySignalNodeData,
    NodeType.STRATEGY_OVERVIEW: OverviewNodeData,
}


class Node(WireModel):
    """A node instance; `data` is validated against the record type of `type`."""

    id: str
    type: NodeType
    position: XYPosition = Field(default_factory=XYPosition)
    data: SerializeAsAny[NodeData] = Field(default_factory=NodeData)

    @model_validator(mode="before")
    @classmethod
    def _select_data_model(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        try:
            node_type = NodeType(value.get("type"))
        except ValueError:
            return value
        data_model = DATA_MODELS[node_type]
        data = value.get("data")
        if data is None or isinstance(data, dict):
            value = dict(value)
            value["data"] = data_model.model_validate(data or {})
        elif isinstance(data, NodeData) and not isinstance(data, data_model):
            value = dict(value)
            value["data"] = data_model.model_validate(data.to_wire())
        return value

    @property
    def is_virtual(self) -> bool:
        extra = self.data.model_extra or {}
        return (
            self.type == NodeType.STRATEGY_OVERVIEW
            or bool(getattr(self.data, "is_virtual", False))
            or bool(extra.get("isVirtual"))
            or bool(extra.get("isStrategyOverview"))
        )


class Edge(WireModel):
    id: str
    source: str
    target: str


class StrategyDocument(WireModel):
    """Unit of persistence, export and import."""

    id: str
    name: str = ""
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    global_variables: List[GlobalVariable] = Field(default_factory=list)
    created: str = ""
    last_modified: str = ""
    description: str = ""
    user_id: Optional[str] = None
    strategy_id: Optional[str] = None


__all__ = [
    "NodeType",
    "VIRTUAL_OVERVIEW_NODE_ID",
    "now_ms",
    "XYPosition",
    "OptionDetails",
    "TrailingConfig",
    "ReEntryConfig",
    "RetryConfig",
    "Position",
    "default_position",
    "NodeVariable",
    "TrailingVariable",
    "GlobalVariable",
    "GlobalVariableUpdate",
    "NodeData",
    "StartNodeData",
    "ConditionNodeData",
    "SignalNodeData",
    "ActionNodeData",
    "EntryNodeData",
    "ExitNodeData",
    "ModifyNodeData",
    "AlertNodeData",
    "RetryNodeData",
    "ReEntrySignalNodeData",
    "EndNodeData",
    "ForceEndNodeData",
    "SquareOffNodeData",
    "OverviewNodeData",
    "DATA_MODELS",
    "Node",
    "Edge",
    "StrategyDocument",
]

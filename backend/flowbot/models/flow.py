# /flowbot/models/flow.py

from pydantic import BaseModel, Field

# Reserved memory keys. The "__" prefix keeps them apart from flow-owned keys.
SELECTOR_KEY = "__flow"
CURSOR_KEY = "__step"
ENTERED_KEY = "__step_entered"

NO_FLOW = ""


class FlowState(BaseModel):
    """
    Snapshot of a conversation's flow progress.

    This is a PURE DATA model. The state machine reads and writes the
    underlying memory keys; this model is what it reports.
    """
    selector: str = Field(default=NO_FLOW, description="Active flow selector, empty when idle")
    cursor: int = Field(default=0, description="Index of the current step")
    entered: bool = Field(default=False, description="Whether the current step's entry action has fired")

    @property
    def idle(self) -> bool:
        return self.selector == NO_FLOW

"""ParsedAnalysis, AnalysisDetails Pydantic models."""

from pydantic import BaseModel, ConfigDict, Field

BUY_SIGNAL = "BUY Signal"
SELL_SIGNAL = "SELL Signal"


class AnalysisDetails(BaseModel):
    """Fields the remote service already extracted; camelCase on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    entry_point: str = Field("", alias="entryPoint")
    target_price: str = Field("", alias="targetPrice")
    stop_loss: str = Field("", alias="stopLoss")
    risk_level: str = Field("", alias="riskLevel")
    timeframe: str = ""
    reasoning: str = ""
    analysis: str = ""


class ParsedAnalysis(BaseModel):
    type: str = BUY_SIGNAL  # BUY Signal, SELL Signal
    content: str = ""
    confidence: int = 75
    details: list[str] = []
    entry_point: str = ""
    target_price: str = ""
    stop_loss: str = ""
    risk_level: str = ""
    timeframe: str = ""
    reasoning: str = ""

    @property
    def is_sell(self) -> bool:
        return self.type == SELL_SIGNAL

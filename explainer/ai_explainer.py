"""
AI Explainer
Plain-language coaching for risk findings via an OpenAI-compatible chat
completions endpoint (HuggingFace router by default).

Without a token, or whenever the endpoint fails, built-in coaching text for
the finding kind is returned instead, so callers always get an answer.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger

from config import ExplainerConfig
from core.models import FindingKind, RiskFinding, TradeRecord

SOURCE_MODEL = "model"
SOURCE_DEMO = "demo"

COACH_PROMPT = (
    "You are a friendly, experienced trading risk coach. Explain trading risks in "
    "simple, conversational language. Be empathetic but direct. Give specific, "
    "actionable advice."
)
SUMMARY_PROMPT = "You are a trading coach giving an overall risk assessment. Be direct but supportive."


@dataclass(frozen=True)
class Explanation:
    explanation: str
    advice: str
    source: str = SOURCE_DEMO


@dataclass(frozen=True)
class RiskSummary:
    summary: str
    level: str  # safe / warning / danger


# ── Built-in coaching text ───────────────────────────────────────────────────

DEMO_EXPLANATIONS: Dict[FindingKind, Explanation] = {
    FindingKind.MARTINGALE: Explanation(
        "Hey, I noticed you're doubling your stakes after losses. This is called Martingale "
        "strategy, and it's one of the riskiest approaches in trading. Even professional "
        "traders avoid this because a small losing streak can wipe out your entire account "
        "in minutes. The math works against you - you risk huge amounts to win small profits.",
        "Switch to fixed stakes immediately. If you lose 2-3 trades in a row, stop trading "
        "and take a break. Never try to 'win back' losses by increasing your risk.",
    ),
    FindingKind.OVERTRADING: Explanation(
        "You're trading very frequently - I'm seeing 5+ trades in just 5 minutes. This "
        "pattern usually indicates emotional or impulsive decisions rather than careful "
        "analysis. When we trade too fast, we stop thinking strategically and start reacting "
        "emotionally, especially after losses.",
        "Set a rule: minimum 5-10 minutes between trades. Use that time to analyze the "
        "market properly and confirm your strategy. Quality over quantity always wins in trading.",
    ),
    FindingKind.LOSS_STREAK: Explanation(
        "You've had several losses in a row, which is completely normal in trading. However, "
        "continuing to trade during a losing streak often makes things worse. Our emotions "
        "take over, and we start making desperate decisions to 'get back to even.'",
        "Take a 1-hour break right now. When you come back, review what went wrong with "
        "fresh eyes. Consider reducing your stake size by 50% for the next few trades until "
        "you rebuild confidence.",
    ),
    FindingKind.BOT_RISK: Explanation(
        "Your DBot is using an automated Martingale or aggressive doubling strategy. While "
        "automation sounds good, these bots can drain your account faster than manual trading "
        "because they execute trades without hesitation. They don't feel fear when things go "
        "wrong - they just keep doubling.",
        "Stop the bot immediately. If you want to use automation, switch to a fixed-stake "
        "strategy where the bot never increases position size. Better yet, trade manually "
        "with strict rules until you're consistently profitable.",
    ),
    FindingKind.POSITION_SIZING: Explanation(
        "Your position sizes are too large relative to your account balance. You're risking "
        "more than 5% per trade, which is way above the 1-2% that professional traders "
        "recommend. This means a few bad trades could seriously damage your account.",
        "Calculate 1-2% of your account balance and use that as your maximum stake. If your "
        "balance is $1000, never risk more than $10-20 per trade. It feels small, but it's "
        "how you survive long enough to become profitable.",
    ),
}

SAFE_SUMMARY = RiskSummary(
    "Great job! Your trading looks disciplined and well-managed. Keep following your "
    "strategy and maintaining consistent position sizes.",
    "safe",
)


def demo_explanation(finding: RiskFinding) -> Explanation:
    return DEMO_EXPLANATIONS.get(finding.kind) or Explanation(
        f"{finding.message}. {finding.explanation_seed}".strip(),
        finding.recommendation,
    )


def demo_summary(findings: Sequence[RiskFinding]) -> RiskSummary:
    high = [f for f in findings if f.is_high]
    if high:
        return RiskSummary(
            f"⚠️ URGENT: You have {len(high)} high-risk pattern(s) detected. Your account is in "
            "danger. These patterns typically lead to rapid account depletion. Stop trading "
            "immediately and review the warnings below.",
            "danger",
        )
    return RiskSummary(
        f"⚡ You have {len(findings)} risk warning(s). While not immediately dangerous, these "
        "patterns reduce your chances of long-term success. Address them before they become habits.",
        "warning",
    )


# ── Prompts ──────────────────────────────────────────────────────────────────

def build_finding_prompt(finding: RiskFinding, recent_trades: Sequence[TradeRecord]) -> str:
    lines = [
        f"{i}. {t.symbol} - Stake: ${t.stake} - P/L: ${t.profit:.2f}"
        for i, t in enumerate(recent_trades[:5], start=1)
    ]
    return (
        "A trader has the following risk pattern detected:\n\n"
        f"Risk Type: {finding.kind.value}\n"
        f"Severity: {finding.severity.value}\n"
        f"Pattern: {finding.message}\n\n"
        "Recent trades:\n"
        + "\n".join(lines)
        + "\n\nExplain this risk in 2-3 friendly sentences, then give specific advice on "
        "what they should do differently. Be conversational and supportive."
    )


def build_summary_prompt(findings: Sequence[RiskFinding], balance: Any, open_positions: int) -> str:
    lines = [f"{i}. {f.kind.value}: {f.message}" for i, f in enumerate(findings, start=1)]
    return (
        f"A trader has {len(findings)} risk issues detected:\n\n"
        + "\n".join(lines)
        + f"\n\nAccount Balance: ${balance}\nOpen Trades: {open_positions}\n\n"
        "Give an overall assessment in 2-3 sentences and list the top 3 actions they "
        "should take RIGHT NOW."
    )


def split_advice(text: str, fallback: str) -> Explanation:
    """Model replies are free text: last paragraph is advice when there are several."""
    paragraphs = [p.strip() for p in text.strip().split("\n\n") if p.strip()]
    if len(paragraphs) >= 2:
        return Explanation("\n\n".join(paragraphs[:-1]), paragraphs[-1], SOURCE_MODEL)
    return Explanation(text.strip(), fallback, SOURCE_MODEL)


class ExplainerUnavailable(Exception):
    """The text-generation endpoint could not produce an answer."""


class AIExplainer:
    """
    Usage:
        explainer = AIExplainer(cfg.explainer)
        text = await explainer.explain(finding, trades)
        summary = await explainer.summarize(report.findings, balance, len(positions))
        await explainer.close()
    """

    def __init__(self, cfg: Optional[ExplainerConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.cfg = cfg or ExplainerConfig()
        self._client = client
        self._owns_client = client is None
        self.requests = 0
        self.fallbacks = 0
        mode = "model" if self.is_live else "demo"
        logger.info(f"Initialized AI Explainer ({mode}, {self.cfg.model})")

    @property
    def is_live(self) -> bool:
        return bool(self.cfg.enabled and self.cfg.hf_token)

    def _session(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.cfg.timeout_sec,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def _chat(self, system: str, user: str, max_tokens: int) -> str:
        self.requests += 1
        try:
            response = await self._session().post(
                self.cfg.chat_url,
                headers={"Authorization": f"Bearer {self.cfg.hf_token}"},
                json={
                    "model": self.cfg.model,
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                    "max_tokens": max_tokens,
                    "temperature": self.cfg.temperature,
                },
            )
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            raise ExplainerUnavailable(str(e)) from e
        if not content or not str(content).strip():
            raise ExplainerUnavailable("empty completion")
        return str(content)

    async def explain(self, finding: RiskFinding, recent_trades: Sequence[TradeRecord] = ()) -> Explanation:
        if not self.is_live:
            return demo_explanation(finding)
        try:
            text = await self._chat(COACH_PROMPT, build_finding_prompt(finding, recent_trades),
                                    self.cfg.max_tokens)
        except ExplainerUnavailable as e:
            self.fallbacks += 1
            logger.warning(f"AI explanation failed ({finding.kind.value}): {e}")
            return demo_explanation(finding)
        return split_advice(text, finding.recommendation)

    async def summarize(self, findings: List[RiskFinding], balance: Any = Decimal("0"),
                        open_positions: int = 0) -> RiskSummary:
        if not findings:
            return SAFE_SUMMARY
        if not self.is_live:
            return demo_summary(findings)
        level = "danger" if any(f.is_high for f in findings) else "warning"
        try:
            text = await self._chat(SUMMARY_PROMPT, build_summary_prompt(findings, balance, open_positions),
                                    self.cfg.max_tokens + 100)
        except ExplainerUnavailable as e:
            self.fallbacks += 1
            logger.warning(f"Summary generation failed: {e}")
            return demo_summary(findings)
        return RiskSummary(text.strip(), level)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def get_stats(self) -> dict:
        return {"live": self.is_live, "requests": self.requests, "fallbacks": self.fallbacks}

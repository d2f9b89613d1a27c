"""
アクセシビリティ監査ステップ — axe-core によるページ監査

ページに axe-core を注入して WCAG タグ単位で監査し、監査ログを
シナリオに添付する。違反の扱いは CheckPolicy に従う:

  - soft  : 違反があってもステップは成功。既知の対応待ち事項として
            メタデータ（Known Compliance Debt）と警告ログを残す
  - strict: 違反があれば StepAssertionError で失敗
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..config import CheckPolicy
from ..errors import StepAssertionError
from .context import StepContext
from .registry import StepRegistry

logger = logging.getLogger(__name__)

steps = StepRegistry()

CHECK_NAME = "accessibility"
AUDIT_ATTACHMENT = "Accessibility Audit Log"
DEBT_METADATA_KEY = "Known Compliance Debt"
AUDIT_TIMEOUT_MS = 60_000

# axe.run の結果をシリアライズ可能な最小形に整形して返す
_RUN_AXE_JS = """
async (tags) => {
  const results = await window.axe.run(document, { runOnly: { type: 'tag', values: tags } });
  return {
    passes: results.passes.map(p => ({ id: p.id, help: p.help })),
    incomplete: results.incomplete.map(r => ({ id: r.id, help: r.help })),
    violations: results.violations.map(v => ({
      id: v.id,
      impact: v.impact,
      help: v.help,
      helpUrl: v.helpUrl,
      targets: v.nodes.map(n => [].concat(n.target).join(' ')),
    })),
  };
}
"""


# ---------------------------------------------------------------------------
# 監査結果
# ---------------------------------------------------------------------------

@dataclass
class Violation:
    rule_id: str
    impact: Optional[str]
    help: str
    help_url: str
    targets: list[str] = field(default_factory=list)


@dataclass
class AuditResult:
    """axe-core の監査結果。

    Attributes:
        passes: 合格したルールの説明
        incomplete: 判定保留のルールの説明
        violations: 違反
    """

    passes: list[str] = field(default_factory=list)
    incomplete: list[str] = field(default_factory=list)
    violations: list[Violation] = field(default_factory=list)

    @classmethod
    def from_axe(cls, raw: dict[str, Any]) -> AuditResult:
        return cls(
            passes=[p.get("help", "") for p in raw.get("passes", [])],
            incomplete=[r.get("help", "") for r in raw.get("incomplete", [])],
            violations=[
                Violation(
                    rule_id=v.get("id", ""),
                    impact=v.get("impact"),
                    help=v.get("help", ""),
                    help_url=v.get("helpUrl", ""),
                    targets=list(v.get("targets", [])),
                )
                for v in raw.get("violations", [])
            ],
        )

    @property
    def total_rules(self) -> int:
        return len(self.passes) + len(self.incomplete) + len(self.violations)


def format_audit_log(result: AuditResult, tags: tuple[str, ...], checked_at: Optional[datetime] = None) -> str:
    """監査結果をレポート添付用のテキストに整形する。"""
    checked_at = checked_at or datetime.now()
    lines = [
        "ACCESSIBILITY COMPLIANCE AUDIT",
        f"Checked on: {checked_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"Rule tags: {', '.join(tags)}",
        f"Total Rules Validated: {result.total_rules}",
        "-" * 48,
        f"PASSED RULES ({len(result.passes)}):",
    ]
    lines.extend(f"  [PASS] {help_text}" for help_text in result.passes)

    if result.violations:
        lines.append("")
        lines.append(f"COMPLIANCE VIOLATIONS FOUND ({len(result.violations)}):")
        for v in result.violations:
            lines.append(f"  [{(v.impact or 'unknown').upper()}] {v.help}")
            lines.append(f"    REMEDIATION: {v.help_url}")
            lines.append(f"    TARGET ELEMENT: {', '.join(v.targets)}")
    else:
        lines.append("")
        lines.append("NO VIOLATIONS FOUND")

    lines.extend(["", "-" * 48, "END OF AUDIT REPORT"])
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# 監査実行
# ---------------------------------------------------------------------------

async def run_audit(ctx: StepContext, policy: CheckPolicy) -> AuditResult:
    """現在のページに axe-core を注入して監査する。"""
    async with ctx.home.nav.action("accessibility_audit", policy.axe_url):
        await ctx.elements.add_script(policy.axe_url)
        raw = await ctx.elements.evaluate(_RUN_AXE_JS, list(policy.tags))
    return AuditResult.from_axe(raw or {})


def apply_policy(ctx: StepContext, result: AuditResult, policy: CheckPolicy) -> None:
    """違反の有無と判定ポリシーに応じてステップの成否を決める。"""
    if not result.violations:
        return

    if policy.mode == "strict":
        raise StepAssertionError(
            f"アクセシビリティ違反が {len(result.violations)} 件あります",
            expected=0, actual=[v.rule_id for v in result.violations],
        )

    if policy.debt_label:
        ctx.add_metadata(DEBT_METADATA_KEY, policy.debt_label)
    logger.warning(
        "アクセシビリティ違反を検出しました（%d 件）。'%s' の添付を確認してください",
        len(result.violations), AUDIT_ATTACHMENT,
    )


@steps.then("the page should be accessible", timeout=AUDIT_TIMEOUT_MS)
async def page_accessible(ctx: StepContext) -> None:
    """axe-core でページを監査し、監査ログを添付する。"""
    policy = ctx.config.check_policy(CHECK_NAME)
    result = await run_audit(ctx, policy)
    audit_log = format_audit_log(result, policy.tags)
    ctx.attach(AUDIT_ATTACHMENT, audit_log, "text/plain")
    logger.info("アクセシビリティ監査: 合格 %d / 違反 %d", len(result.passes), len(result.violations))
    apply_policy(ctx, result, policy)

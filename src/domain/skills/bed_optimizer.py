"""Bed Capacity Optimizer.

Capacity report for a tenant's hospital: capacity and efficiency scores,
per-unit bottlenecks and opportunities, census forecasts for the next three
shifts, discharge candidates and capacity insights. Also recommends the
best available bed for an incoming patient.

Forecasts, discharge candidates and bed matching use the accurate model.
Each has a statistical or rule-based fallback so a report is always
produced; insights and scores are rule-based.

Security Impact:
    - Tenant ids are validated as UUIDs before any query
    - A model-recommended bed is only accepted if it is in the available list

Architecture:
    - BaseSkill subclass over DatabasePort and LLMRouterPort
    - Bed board and unit capacity come from database functions when present
      and are derived from ``beds`` and ``hospital_units`` otherwise
    - Historical averages use pandas over ``daily_census_snapshots``
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import pandas as pd
from pydantic import ValidationError as ModelValidationError

from src.domain.bed_models import (
    AlternativeBed,
    BedAssignmentRecommendation,
    CapacityForecast,
    CapacityInsight,
    DischargeRecommendation,
    ForecastFactors,
    IncomingPatient,
    OptimizationReport,
    UnitBreakdown,
)
from src.domain.guardrails import clamp, classify_capacity_risk, validate_uuid
from src.domain.ports import ErrorCode, LLMError, ServiceResult, TableQuery, ValidationError
from src.domain.skills.base import BaseSkill, extract_json, extract_json_array
from src.domain.utils import parse_datetime, utc_now

logger = logging.getLogger(__name__)

TARGET_OCCUPANCY = 0.85
FALLBACK_MODEL = "fallback"
DEFAULT_DISCHARGES = 5
DEFAULT_ADMISSIONS = 6
MAX_DISCHARGE_CANDIDATES = 10

# Shift start offsets from 07:00
SHIFTS = [("day", 0), ("evening", 8), ("night", 16)]

FORECAST_SYSTEM_PROMPT = """You are an expert hospital capacity analyst specializing in bed management optimization.
Your role is to predict bed availability and census for the upcoming shift with high accuracy.

PREDICTION METHODOLOGY:
1. Start with current census as baseline
2. Subtract expected discharges (adjusted for day/shift patterns)
3. Add expected admissions (scheduled + unscheduled based on historical)
4. Apply seasonal and day-of-week adjustments
5. Consider pending transfers and observation conversions

SHIFT PATTERNS (typical):
- Day shift (7a-3p): 60-70% of daily discharges, 40% of admissions
- Evening shift (3p-11p): 25-30% of discharges, 35% of admissions
- Night shift (11p-7a): 5-10% of discharges, 25% of admissions (ED surges)

RISK THRESHOLDS:
- Occupancy < 70%: Low risk (underutilization concern)
- Occupancy 70-85%: Moderate risk (optimal range)
- Occupancy 85-95%: High risk (capacity strain)
- Occupancy > 95%: Critical risk (diversion may be needed)

Return response as strict JSON:
{
  "predictedCensus": 85,
  "predictedDischarges": 8,
  "predictedAdmissions": 10,
  "predictedAvailableBeds": 15,
  "confidenceLevel": 0.82,
  "riskLevel": "moderate",
  "capacityUtilization": 0.85,
  "recommendations": ["Consider early discharge rounds", "Monitor ED boarding"],
  "rationale": "Based on historical Tuesday patterns..."
}"""

DISCHARGE_SYSTEM_PROMPT = """You are an expert hospital discharge planner optimizing patient flow.
Analyze occupied beds and recommend discharge priorities to optimize capacity.

DISCHARGE READINESS CRITERIA:
- "ready": All clinical criteria met, disposition confirmed, transportation arranged
- "likely_today": Clinical criteria met, minor pending items (paperwork, meds, education)
- "likely_tomorrow": Clinical criteria expected to be met, disposition planning in progress
- "needs_more_time": Clinical issues pending, not appropriate for discharge today

PRIORITIZATION FACTORS:
1. Length of stay vs benchmark (>90th percentile = priority)
2. Expected discharge orders already written
3. Disposition complexity (home vs SNF)
4. Bed type demand (ICU beds highest priority)
5. Observation patient conversion (>24 hours)

Return JSON array of top 10 discharge candidates:
[
  {
    "patientId": "uuid",
    "patientName": "John D.",
    "bedLabel": "ICU-102A",
    "unitName": "ICU",
    "currentLOS": 4,
    "predictedDischargeDate": "2025-12-07",
    "dischargeReadiness": "likely_today",
    "confidence": 0.85,
    "factors": {"clinicalReadiness": "", "socialFactors": "", "pendingItems": [], "barriers": []},
    "suggestedDisposition": "home",
    "estimatedDischargeTime": "14:00",
    "aiRationale": "Patient meets all clinical criteria..."
  }
]"""

ASSIGNMENT_SYSTEM_PROMPT = """You are an expert hospital bed assignment specialist.
Match the incoming patient to the optimal available bed based on:

1. ACUITY MATCH: Patient acuity must be within unit's capability
2. EQUIPMENT MATCH: Required equipment must be available (telemetry, isolation, etc.)
3. UNIT PREFERENCE: Match to preferred unit type when possible
4. BED TYPE: Match bariatric, pediatric, or specialty bed needs
5. PROXIMITY: Consider nursing workflow efficiency

SCORING:
- Perfect match: 95-100
- Good match: 80-94
- Acceptable: 60-79
- Suboptimal: 40-59
- Not recommended: <40

Return JSON:
{
  "recommendedBedId": "uuid",
  "bedLabel": "3N-105A",
  "unitName": "Med-Surg North",
  "matchScore": 92,
  "matchFactors": {"acuityMatch": true, "equipmentMatch": true, "isolationMatch": true, "unitPreference": true, "proximityToNurseStation": false},
  "alternativeBeds": [{"bedId": "uuid", "bedLabel": "3S-102B", "matchScore": 85, "reason": "Further from nurses station"}],
  "aiRationale": "This bed is optimal because..."
}"""


# ============================================================================
# Scoring helpers
# ============================================================================

def occupancy(unit: dict) -> float:
    total = unit.get("total_beds") or 0
    return (unit.get("occupied_count") or 0) / total if total > 0 else 0.0


def capacity_score(units: list[dict]) -> float:
    """100 at the 85% target, minus 2 points per percentage point away from it."""
    total = sum(u.get("total_beds") or 0 for u in units)
    occupied = sum(u.get("occupied_count") or 0 for u in units)
    rate = occupied / total if total > 0 else 0.0
    return clamp(100 - abs(rate - TARGET_OCCUPANCY) * 200, 0, 100)


def efficiency_score(units: list[dict]) -> float:
    score = 80
    total = sum(u.get("total_beds") or 0 for u in units)
    occupied = sum(u.get("occupied_count") or 0 for u in units)
    rate = occupied / total if total > 0 else 0.0

    if 0.75 <= rate <= 0.90:
        score += 10
    elif rate < 0.60 or rate > 0.95:
        score -= 15

    if sum(u.get("pending_clean_count") or 0 for u in units) > 5:
        score -= 5
    return clamp(score, 0, 100)


def unit_efficiency(unit: dict) -> float:
    return max(0.0, 100 - abs(occupancy(unit) - TARGET_OCCUPANCY) * 100)


def unit_bottlenecks(unit: dict) -> list[str]:
    bottlenecks = []
    if occupancy(unit) > 0.95:
        bottlenecks.append("Critical occupancy")
    if (unit.get("pending_clean_count") or 0) > 2:
        bottlenecks.append("Bed turnaround delays")
    if unit.get("available_count") == 0:
        bottlenecks.append("No available beds")
    return bottlenecks


def unit_opportunities(unit: dict) -> list[str]:
    opportunities = []
    if occupancy(unit) < 0.70:
        opportunities.append("Accept overflow patients")
    if (unit.get("available_count") or 0) > 5:
        opportunities.append("Elective admission capacity")
    return opportunities


def capacity_from_board(bed_board: list[dict]) -> list[dict]:
    """Per-unit counts aggregated from bed board rows."""
    if not bed_board:
        return []
    df = pd.DataFrame(bed_board)
    if "unit_name" not in df:
        df["unit_name"] = df["unit_id"]
    df["unit_name"] = df["unit_name"].fillna(df["unit_id"])
    units = []
    for (unit_id, unit_name), group in df.groupby(["unit_id", "unit_name"], dropna=False):
        statuses = group["status"]
        units.append({
            "unit_id": unit_id,
            "unit_name": unit_name,
            "total_beds": int(len(group)),
            "occupied_count": int((statuses == "occupied").sum()),
            "available_count": int((statuses == "available").sum()),
            "pending_clean_count": int(statuses.isin(["dirty", "cleaning"]).sum()),
        })
    return units


def historical_averages(history: list[dict], day_name: str) -> tuple[float, float]:
    """Mean discharges and admissions on the same weekday (defaults 5 and 6)."""
    if not history:
        return float(DEFAULT_DISCHARGES), float(DEFAULT_ADMISSIONS)
    df = pd.DataFrame(history)
    df["census_date"] = pd.to_datetime(df["census_date"], utc=True, errors="coerce")
    same_day = df[df["census_date"].dt.day_name() == day_name]
    if same_day.empty:
        return float(DEFAULT_DISCHARGES), float(DEFAULT_ADMISSIONS)

    def mean_of(column: str) -> float:
        if column not in same_day:
            return 0.0
        return float(pd.to_numeric(same_day[column], errors="coerce").fillna(0).mean())

    return mean_of("discharges_count"), mean_of("admissions_count")


def shift_start(now: datetime, offset_hours: int) -> datetime:
    start = now.replace(hour=7, minute=0, second=0, microsecond=0) + timedelta(hours=offset_hours)
    if start < now:
        start += timedelta(days=1)
    return start


def length_of_stay(bed: dict, now: datetime) -> int:
    assigned = parse_datetime(bed.get("assigned_at"))
    return max(0, (now - assigned).days) if assigned else 0


def rule_based_discharges(occupied: list[dict], now: datetime) -> list[DischargeRecommendation]:
    """Candidates from expected discharge dates: due today or earlier, then tomorrow; longest stay first."""
    today = now.date()
    candidates = []
    for bed in occupied:
        expected = parse_datetime(bed.get("expected_discharge_date"))
        if expected is None:
            continue
        days_until = (expected.date() - today).days
        if days_until > 1:
            continue
        readiness = "likely_today" if days_until <= 0 else "likely_tomorrow"
        candidates.append(DischargeRecommendation(
            patient_id=bed.get("patient_id"),
            patient_name=bed.get("patient_name"),
            bed_label=bed.get("bed_label"),
            unit_name=bed.get("unit_name"),
            current_los=length_of_stay(bed, now),
            predicted_discharge_date=expected.date().isoformat(),
            discharge_readiness=readiness,
            confidence=0.5,
            factors={"pendingItems": [], "barriers": []},
            ai_rationale="Rule-based: expected discharge date reached" if days_until <= 0
            else "Rule-based: expected discharge tomorrow",
        ))
    candidates.sort(key=lambda c: (c.discharge_readiness != "likely_today", -c.current_los))
    return candidates[:MAX_DISCHARGE_CANDIDATES]


def score_bed(patient: IncomingPatient, bed: dict) -> int:
    """Rule-based match score; 0 when the bed lacks a required capability."""
    if patient.requires_telemetry and not bed.get("has_telemetry"):
        return 0
    if patient.requires_isolation and not bed.get("has_isolation_capability"):
        return 0
    if patient.requires_negative_pressure and not bed.get("has_negative_pressure"):
        return 0
    if patient.is_bariatric and bed.get("bed_type") != "bariatric":
        return 0

    score = 60
    if patient.preferred_unit_type and bed.get("unit_type") == patient.preferred_unit_type:
        score += 20
    if patient.acuity_level == "critical" and bed.get("bed_type") == "icu":
        score += 15
    elif patient.acuity_level != "critical" and bed.get("bed_type") == "icu":
        score -= 20
    # Specialty capability the patient does not need
    if bed.get("has_negative_pressure") and not patient.requires_negative_pressure:
        score -= 10
    if bed.get("has_telemetry") and not patient.requires_telemetry:
        score -= 5
    return int(clamp(score, 1, 100))


def rule_based_assignment(patient: IncomingPatient, beds: list[dict]) -> Optional[BedAssignmentRecommendation]:
    scored = sorted(((score_bed(patient, bed), bed) for bed in beds), key=lambda item: item[0], reverse=True)
    eligible = [(score, bed) for score, bed in scored if score > 0]
    if not eligible:
        return None
    best_score, best = eligible[0]
    return BedAssignmentRecommendation(
        recommended_bed_id=best["id"],
        bed_label=best.get("bed_label"),
        unit_name=best.get("unit_name"),
        match_score=best_score,
        match_factors={
            "acuityMatch": patient.acuity_level != "critical" or best.get("bed_type") == "icu",
            "equipmentMatch": True,
            "isolationMatch": not patient.requires_isolation or bool(best.get("has_isolation_capability")),
            "unitPreference": bool(patient.preferred_unit_type)
            and best.get("unit_type") == patient.preferred_unit_type,
            "proximityToNurseStation": False,
        },
        alternative_beds=[
            AlternativeBed(bed_id=bed["id"], bed_label=bed.get("bed_label"), match_score=score,
                           reason="Lower rule-based match score")
            for score, bed in eligible[1:4]
        ],
        ai_rationale=f"Rule-based match: meets all required capabilities with score {best_score}",
    )


def build_forecast_prompt(
    forecast_date: datetime,
    shift: str,
    census: int,
    total_beds: int,
    units: list[dict],
    avg_discharges: float,
    avg_admissions: float,
    arrivals: int,
    day_name: str,
    recent: list[dict]
) -> str:
    occupancy_pct = census / total_beds * 100 if total_beds else 0.0
    lines = [
        f"Predict hospital bed capacity for {day_name} {shift} shift ({forecast_date.date().isoformat()}):",
        "",
        "=== CURRENT STATE ===",
        f"- Total beds: {total_beds}",
        f"- Current census: {census}",
        f"- Current occupancy: {occupancy_pct:.1f}%",
        f"- Available beds: {total_beds - census}",
        "",
        "=== UNIT BREAKDOWN ===",
    ]
    for unit in units:
        lines.append(
            f"- {unit.get('unit_name')}: {unit.get('occupied_count')}/{unit.get('total_beds')} "
            f"({occupancy(unit) * 100:.0f}%)"
        )
    lines.extend([
        "",
        f"=== HISTORICAL PATTERNS ({day_name}s) ===",
        f"- Average discharges: {avg_discharges:.1f}",
        f"- Average admissions: {avg_admissions:.1f}",
        f"- Scheduled arrivals for this date: {arrivals}",
        "",
        "=== RECENT 7-DAY TREND ===",
    ])
    for row in recent:
        census_value = row.get("midnight_census") or row.get("eod_census")
        lines.append(
            f"- {row.get('census_date')}: Census={census_value}, "
            f"D/C={row.get('discharges_count') or 0}, Adm={row.get('admissions_count') or 0}"
        )
    lines.extend([
        "",
        "=== TASK ===",
        f"Predict census, discharges, and admissions for the {shift} shift.",
        "Assess capacity risk level and provide actionable recommendations.",
        f"Consider {day_name} patterns and the {shift} shift characteristics.",
    ])
    return "\n".join(lines)


def build_discharge_prompt(occupied: list[dict], now: datetime) -> str:
    lines = ["Analyze these occupied beds for discharge prioritization:", ""]
    for index, bed in enumerate(occupied[:30], start=1):
        lines.append(f"{index}. {bed.get('bed_label')} ({bed.get('unit_name')})")
        lines.append(f"   Patient: {bed.get('patient_name') or 'Unknown'} | Acuity: {bed.get('patient_acuity') or 'N/A'}")
        lines.append(
            f"   LOS: {length_of_stay(bed, now)} days | Expected D/C: {bed.get('expected_discharge_date') or 'Not set'}"
        )
        lines.append("")
    lines.append("Identify top 10 discharge candidates with readiness assessment and rationale.")
    return "\n".join(lines)


def build_assignment_prompt(patient: IncomingPatient, beds: list[dict]) -> str:
    def yes(flag: bool) -> str:
        return "YES" if flag else "No"

    lines = [
        "Find optimal bed for incoming patient:",
        "",
        "=== PATIENT REQUIREMENTS ===",
        f"- Acuity: {patient.acuity_level}",
        f"- Diagnosis: {patient.diagnosis or 'Not specified'}",
        f"- Telemetry needed: {yes(patient.requires_telemetry)}",
        f"- Isolation needed: {yes(patient.requires_isolation)}",
        f"- Negative pressure: {yes(patient.requires_negative_pressure)}",
        f"- Bariatric: {yes(patient.is_bariatric)}",
        f"- Preferred unit: {patient.preferred_unit_type or 'Any'}",
        f"- Expected LOS: {patient.expected_los or 'Unknown'} days",
        f"- Admission source: {patient.admission_source}",
        "",
        f"=== AVAILABLE BEDS ({len(beds)}) ===",
    ]
    for index, bed in enumerate(beds[:20], start=1):
        lines.append(f"{index}. {bed.get('bed_label')} ({bed.get('unit_name')}) id={bed.get('id')}")
        lines.append(
            f"   Type: {bed.get('bed_type')} | Tele: {bool(bed.get('has_telemetry'))} | "
            f"Iso: {bool(bed.get('has_isolation_capability'))} | NegP: {bool(bed.get('has_negative_pressure'))}"
        )
    lines.append("")
    lines.append("Recommend the best bed match with scoring and rationale.")
    return "\n".join(lines)


# ============================================================================
# Skill
# ============================================================================

class BedOptimizer(BaseSkill):
    """Capacity forecasting, discharge planning and bed matching.

    Example Usage:
        ```python
        optimizer = BedOptimizer(database, llm_router, tracker)
        report = optimizer.generate_optimization_report(tenant_id)
        if report.is_success():
            for insight in report.data.insights:
                print(insight.severity, insight.title)
        ```
    """

    SKILL_KEY = "bed_optimizer"
    SKILL_NAME = "bed_optimization"
    AUDIT_CATEGORY = "ADMINISTRATIVE"

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def get_bed_board(self, tenant_id: str) -> list[dict]:
        result = self.database.rpc("get_bed_board_view", {"p_tenant_id": tenant_id})
        if result.is_success() and isinstance(result.data, list):
            return result.data

        beds = self.database.select(TableQuery("beds").eq("tenant_id", tenant_id).eq("is_active", True))
        if beds.is_failure():
            logger.warning(f"Bed board unavailable for tenant {tenant_id}: {beds.error.message}")
            return []
        units = self._units_by_id(tenant_id)
        return [
            {**bed, "bed_id": bed.get("id"), **units.get(bed.get("unit_id"), {})}
            for bed in beds.data or []
        ]

    def get_unit_capacity(self, tenant_id: str, bed_board: Optional[list[dict]] = None) -> list[dict]:
        result = self.database.rpc("get_unit_capacity_summary", {"p_tenant_id": tenant_id})
        if result.is_success() and isinstance(result.data, list):
            return result.data
        return capacity_from_board(bed_board if bed_board is not None else self.get_bed_board(tenant_id))

    def _units_by_id(self, tenant_id: str) -> dict[str, dict]:
        result = self.database.select(
            TableQuery("hospital_units", "id, unit_name, unit_type, unit_code").eq("tenant_id", tenant_id)
        )
        if result.is_failure():
            logger.warning(f"Hospital units unavailable for tenant {tenant_id}: {result.error.message}")
            return {}
        return {
            unit["id"]: {"unit_name": unit.get("unit_name"), "unit_type": unit.get("unit_type")}
            for unit in result.data or []
        }

    def _history(self, tenant_id: str, days: int, now: datetime) -> list[dict]:
        result = self.database.select(
            TableQuery("daily_census_snapshots")
            .eq("tenant_id", tenant_id)
            .gte("census_date", (now - timedelta(days=days)).date().isoformat())
            .order("census_date", ascending=False)
        )
        return result.data or [] if result.is_success() else []

    def _scheduled_arrivals(self, tenant_id: str, days: int, now: datetime) -> list[dict]:
        result = self.database.select(
            TableQuery("scheduled_arrivals")
            .eq("tenant_id", tenant_id)
            .gte("scheduled_date", now.isoformat())
            .lte("scheduled_date", (now + timedelta(days=days)).isoformat())
            .eq("status", "confirmed")
        )
        return result.data or [] if result.is_success() else []

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def generate_optimization_report(
        self,
        tenant_id: str,
        now: Optional[datetime] = None
    ) -> ServiceResult[OptimizationReport]:
        try:
            validate_uuid(tenant_id, "tenantId")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)

        now = now or utc_now()
        try:
            bed_board = self.get_bed_board(tenant_id)
            units = self.get_unit_capacity(tenant_id, bed_board)
            history = self._history(tenant_id, 30, now)
            arrivals = self._scheduled_arrivals(tenant_id, 3, now)

            forecasts = self.generate_capacity_forecasts(tenant_id, bed_board, units, history, arrivals, now)
            discharges = self.generate_discharge_recommendations(tenant_id, bed_board, now)
            insights = self.generate_capacity_insights(bed_board, units)

            total_beds = sum(u.get("total_beds") or 0 for u in units)
            occupied = sum(u.get("occupied_count") or 0 for u in units)
            occupancy_rate = occupied / total_beds if total_beds > 0 else 0.0
            models = [f.ai_model for f in forecasts if f.ai_model != FALLBACK_MODEL]

            report = OptimizationReport(
                generated_at=now.isoformat(),
                overall_capacity_score=round(capacity_score(units)),
                overall_efficiency_score=round(efficiency_score(units)),
                current_occupancy_rate=round(occupancy_rate, 2),
                target_occupancy_rate=TARGET_OCCUPANCY,
                forecasts=forecasts,
                discharge_recommendations=discharges,
                insights=insights,
                unit_breakdown=[
                    UnitBreakdown(
                        unit_id=unit.get("unit_id"),
                        unit_name=unit.get("unit_name") or "Unknown",
                        occupancy=occupancy(unit),
                        efficiency=unit_efficiency(unit),
                        bottlenecks=unit_bottlenecks(unit),
                        opportunities=unit_opportunities(unit),
                    )
                    for unit in units
                ],
                ai_model=models[0] if models else FALLBACK_MODEL,
                total_ai_cost=sum(f.ai_cost for f in forecasts),
            )
        except Exception as e:
            logger.error(f"Optimization report failed: {e}")
            self.audit.error("BED_OPTIMIZATION_FAILED", e)
            return ServiceResult.failure_result(
                ErrorCode.OPTIMIZATION_FAILED, f"Failed to generate optimization report: {e}"
            )

        self.audit.info("BED_OPTIMIZATION_REPORT_GENERATED", {
            "tenantId": tenant_id,
            "capacityScore": report.overall_capacity_score,
            "efficiencyScore": report.overall_efficiency_score,
            "insights": len(report.insights),
        })
        return ServiceResult.success_result(report)

    # ------------------------------------------------------------------
    # Forecasts
    # ------------------------------------------------------------------

    def generate_capacity_forecasts(
        self,
        tenant_id: str,
        bed_board: list[dict],
        units: list[dict],
        history: list[dict],
        arrivals: list[dict],
        now: Optional[datetime] = None
    ) -> list[CapacityForecast]:
        """Forecasts for the next day, evening and night shifts."""
        now = now or utc_now()
        return [
            self._forecast_shift(tenant_id, shift_start(now, offset), shift, bed_board, units, history, arrivals)
            for shift, offset in SHIFTS
        ]

    def _forecast_shift(
        self,
        tenant_id: str,
        forecast_date: datetime,
        shift: str,
        bed_board: list[dict],
        units: list[dict],
        history: list[dict],
        arrivals: list[dict]
    ) -> CapacityForecast:
        total_beds = sum(u.get("total_beds") or 0 for u in units)
        census = sum(1 for bed in bed_board if bed.get("status") == "occupied")
        day_name = forecast_date.strftime("%A")
        avg_discharges, avg_admissions = historical_averages(history, day_name)
        arrivals_for_date = sum(
            1 for arrival in arrivals
            if (parsed := parse_datetime(arrival.get("scheduled_date"))) and parsed.date() == forecast_date.date()
        )
        utilization = census / total_beds if total_beds else 0.0

        def factors(pattern: str) -> ForecastFactors:
            return ForecastFactors(
                day_of_week=day_name,
                historical_pattern=pattern,
                scheduled_arrivals=arrivals_for_date,
                expected_discharges=round(avg_discharges),
            )

        fallback = CapacityForecast(
            forecast_date=forecast_date.isoformat(),
            shift_period=shift,
            predicted_census=census,
            predicted_discharges=round(avg_discharges),
            predicted_admissions=round(avg_admissions),
            predicted_available_beds=total_beds - census,
            confidence_level=0.5,
            risk_level=classify_capacity_risk(utilization),
            capacity_utilization=utilization,
            factors=factors("Fallback calculation"),
            recommendations=["AI prediction unavailable - using statistical fallback"],
            ai_model=FALLBACK_MODEL,
            ai_cost=0.0,
        )

        prompt = build_forecast_prompt(
            forecast_date, shift, census, total_beds, units, avg_discharges, avg_admissions,
            arrivals_for_date, day_name, history[:7],
        )
        try:
            response = self.call_model(prompt, system_prompt=FORECAST_SYSTEM_PROMPT, complexity="complex",
                                       user_id=tenant_id)
        except LLMError as e:
            logger.warning(f"{shift} shift forecast using fallback: {e.message}")
            return fallback

        parsed = extract_json(response.text) or {}
        try:
            forecast = CapacityForecast(
                forecast_date=forecast_date.isoformat(),
                shift_period=shift,
                predicted_census=int(parsed.get("predictedCensus") or census),
                predicted_discharges=int(parsed.get("predictedDischarges") or round(avg_discharges)),
                predicted_admissions=int(parsed.get("predictedAdmissions") or round(avg_admissions)),
                predicted_available_beds=int(parsed.get("predictedAvailableBeds") or total_beds - census),
                confidence_level=float(parsed.get("confidenceLevel") or 0.75),
                risk_level=parsed.get("riskLevel") or "moderate",
                capacity_utilization=float(parsed.get("capacityUtilization") or utilization),
                factors=factors(f"Avg {round(avg_discharges)} discharges, {round(avg_admissions)} admissions"),
                recommendations=parsed.get("recommendations") or [],
                ai_model=response.model,
                ai_cost=response.cost,
            )
        except (TypeError, ValueError, ModelValidationError) as e:
            logger.warning(f"{shift} shift forecast reply unusable, using fallback: {e}")
            return fallback

        self.log_usage(response, tenant_id=tenant_id, request_type="capacity_forecast", extra={"shift": shift})
        self.record_prediction(
            response,
            {
                "predictedCensus": forecast.predicted_census,
                "predictedDischarges": forecast.predicted_discharges,
                "predictedAdmissions": forecast.predicted_admissions,
                "riskLevel": forecast.risk_level,
                "shiftPeriod": shift,
            },
            tenant_id=tenant_id,
            confidence=forecast.confidence_level,
            entity_type="shift_forecast",
            entity_id=f"{forecast.forecast_date}_{shift}",
            skill_name="bed_capacity_forecast",
        )
        return forecast

    # ------------------------------------------------------------------
    # Discharges
    # ------------------------------------------------------------------

    def generate_discharge_recommendations(
        self,
        tenant_id: str,
        bed_board: Optional[list[dict]] = None,
        now: Optional[datetime] = None
    ) -> list[DischargeRecommendation]:
        """Top discharge candidates; rule-based from expected discharge dates when the model fails."""
        now = now or utc_now()
        if bed_board is None:
            bed_board = self.get_bed_board(tenant_id)
        occupied = [bed for bed in bed_board if bed.get("status") == "occupied" and bed.get("patient_id")]
        if not occupied:
            return []

        try:
            response = self.call_model(build_discharge_prompt(occupied, now), system_prompt=DISCHARGE_SYSTEM_PROMPT,
                                       complexity="complex", user_id=tenant_id)
        except LLMError as e:
            logger.warning(f"Discharge planning using rule-based candidates: {e.message}")
            return rule_based_discharges(occupied, now)

        self.log_usage(response, tenant_id=tenant_id, request_type="discharge_planning")
        recommendations = []
        for item in (extract_json_array(response.text) or [])[:MAX_DISCHARGE_CANDIDATES]:
            if not isinstance(item, dict):
                continue
            try:
                recommendations.append(DischargeRecommendation.model_validate(item))
            except ModelValidationError:
                logger.debug("Skipping malformed discharge candidate")
        return recommendations or rule_based_discharges(occupied, now)

    # ------------------------------------------------------------------
    # Bed assignment
    # ------------------------------------------------------------------

    def recommend_bed_assignment(
        self,
        tenant_id: str,
        patient: IncomingPatient
    ) -> ServiceResult[BedAssignmentRecommendation]:
        try:
            validate_uuid(tenant_id, "tenantId")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)

        beds = self.database.select(
            TableQuery("beds")
            .eq("tenant_id", tenant_id)
            .eq("status", "available")
            .eq("is_active", True)
        )
        if beds.is_failure() or not beds.data:
            return ServiceResult.failure_result(ErrorCode.NO_BEDS_AVAILABLE, "No available beds found")

        units = self._units_by_id(tenant_id)
        available = [{**bed, **units.get(bed.get("unit_id"), {})} for bed in beds.data]
        by_id = {bed["id"]: bed for bed in available}

        recommendation = None
        try:
            response = self.call_model(build_assignment_prompt(patient, available),
                                       system_prompt=ASSIGNMENT_SYSTEM_PROMPT, complexity="complex",
                                       user_id=tenant_id)
            parsed = extract_json(response.text)
            if parsed and parsed.get("recommendedBedId") in by_id:
                recommendation = BedAssignmentRecommendation.model_validate(parsed)
                self.log_usage(response, tenant_id=tenant_id, patient_id=patient.patient_id,
                               request_type="bed_assignment")
                self.record_prediction(
                    response,
                    {
                        "recommendedBedId": recommendation.recommended_bed_id,
                        "matchScore": recommendation.match_score,
                        "patientAcuity": patient.acuity_level,
                        "requiresTelemetry": patient.requires_telemetry,
                        "requiresIsolation": patient.requires_isolation,
                    },
                    tenant_id=tenant_id,
                    patient_id=patient.patient_id,
                    confidence=recommendation.match_score / 100,
                    entity_type="bed_assignment",
                    entity_id=recommendation.recommended_bed_id,
                    skill_name="bed_assignment",
                )
            else:
                logger.warning("Bed assignment reply did not name an available bed; using rule-based match")
        except LLMError as e:
            logger.warning(f"Bed assignment using rule-based match: {e.message}")
        except ModelValidationError as e:
            logger.warning(f"Bed assignment reply unusable: {e.error_count()} errors")

        if recommendation is None:
            recommendation = rule_based_assignment(patient, available)
        if recommendation is None:
            return ServiceResult.failure_result(
                ErrorCode.ASSIGNMENT_FAILED, "Failed to recommend bed: no available bed meets the patient's requirements"
            )

        self.audit.info("BED_ASSIGNMENT_RECOMMENDED", {
            "tenantId": tenant_id,
            "bedId": recommendation.recommended_bed_id,
            "matchScore": recommendation.match_score,
        })
        return ServiceResult.success_result(recommendation)

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def generate_capacity_insights(self, bed_board: list[dict], units: list[dict]) -> list[CapacityInsight]:
        """Rule-based warnings, bottlenecks and optimization opportunities."""
        insights = []

        for unit in units:
            rate = occupancy(unit)
            name = unit.get("unit_name") or "Unknown"
            metrics = {"occupancy": rate, "available": unit.get("available_count") or 0}
            if rate > 0.95:
                insights.append(CapacityInsight(
                    insight_type="warning",
                    severity="critical",
                    title=f"{name} at critical capacity",
                    description=(
                        f"{name} is at {round(rate * 100)}% occupancy with only "
                        f"{unit.get('available_count') or 0} beds available."
                    ),
                    affected_units=[name],
                    metrics=metrics,
                    recommendations=[
                        {"action": "Expedite discharge rounds", "priority": "urgent",
                         "estimated_impact": "1-2 beds freed", "timeframe": "2 hours"},
                        {"action": "Consider overflow to adjacent unit", "priority": "high",
                         "estimated_impact": "Prevent diversion", "timeframe": "Immediate"},
                    ],
                ))
            elif rate > 0.85:
                insights.append(CapacityInsight(
                    insight_type="warning",
                    severity="warning",
                    title=f"{name} approaching capacity",
                    description=f"{name} is at {round(rate * 100)}% occupancy.",
                    affected_units=[name],
                    metrics=metrics,
                    recommendations=[
                        {"action": "Review discharge readiness", "priority": "medium",
                         "estimated_impact": "Proactive bed management", "timeframe": "4 hours"},
                    ],
                ))

        dirty = [bed for bed in bed_board if bed.get("status") in ("dirty", "cleaning")]
        if len(dirty) > 5:
            insights.append(CapacityInsight(
                insight_type="bottleneck",
                severity="warning",
                title="Bed turnaround backlog detected",
                description=f"{len(dirty)} beds waiting for cleaning. This delays admissions.",
                affected_units=sorted({bed.get("unit_name") or "Unknown" for bed in dirty}),
                metrics={"dirtyCount": len(dirty)},
                recommendations=[
                    {"action": "Add EVS staff to high-priority units", "priority": "high",
                     "estimated_impact": "Reduce turnaround by 30min", "timeframe": "1 hour"},
                    {"action": "Prioritize ICU/ED beds for cleaning", "priority": "high",
                     "estimated_impact": "Critical capacity relief", "timeframe": "Immediate"},
                ],
            ))

        for unit in units:
            rate = occupancy(unit)
            name = unit.get("unit_name") or "Unknown"
            if rate < 0.5 and (unit.get("total_beds") or 0) >= 10:
                insights.append(CapacityInsight(
                    insight_type="optimization",
                    severity="info",
                    title=f"{name} underutilized",
                    description=f"{name} is at {round(rate * 100)}% occupancy. Consider accepting overflow.",
                    affected_units=[name],
                    metrics={"occupancy": rate, "available": unit.get("available_count") or 0},
                    recommendations=[
                        {"action": "Accept overflow from high-census units", "priority": "low",
                         "estimated_impact": "Balance census", "timeframe": "As needed"},
                    ],
                ))

        return insights

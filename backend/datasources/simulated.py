"""Simulated bureau and verification sources.

Values supplied in the execution variables are echoed back so workflows
behave predictably with real applicant data; anything missing is filled
from the client's random generator.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from datasources.base import DataSourceClient


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CreditBureauSource(DataSourceClient):
    source_type = "credit_bureau"
    display_name = "Credit Bureau"

    async def fetch(self, config: Dict[str, Any], variables: Dict[str, Any]) -> Dict[str, Any]:
        score = variables.get("credit_score")
        if score is None:
            score = self.rng.randint(300, 850)
        opened = datetime.now(timezone.utc) - timedelta(days=self.rng.randint(365, 3650))
        return {
            "credit_score": score,
            "credit_history": {
                "accounts": self.rng.randint(1, 10),
                "delinquencies": self.rng.randint(0, 2),
                "inquiries": self.rng.randint(0, 4),
                "oldest_account": opened.isoformat(),
            },
            "tradelines": [
                {
                    "creditor": "Credit Card Company",
                    "balance": self.rng.randint(0, 10_000),
                    "limit": self.rng.randint(5_000, 25_000),
                    "status": "current",
                }
            ],
            "bureau": config.get("bureau", "Experian"),
            "fetched_at": _now(),
        }


class IncomeVerificationSource(DataSourceClient):
    source_type = "income_verification"
    display_name = "Income Verification"

    async def fetch(self, config: Dict[str, Any], variables: Dict[str, Any]) -> Dict[str, Any]:
        stated = float(variables.get("annual_income") or variables.get("stated_income") or 50_000)
        annual = round(stated * self.rng.uniform(0.9, 1.1), 2)
        return {
            "employment_status": variables.get("employment_status", "active"),
            "employer": variables.get("employer_name", "Unknown Employer"),
            "annual_income": annual,
            "monthly_income": round(annual / 12, 2),
            "verification_method": config.get("method", "payroll_verification"),
            "confidence": round(self.rng.uniform(0.8, 1.0), 3),
            "fetched_at": _now(),
        }


class FraudDetectionSource(DataSourceClient):
    source_type = "fraud_detection"
    display_name = "Fraud Detection"

    async def fetch(self, config: Dict[str, Any], variables: Dict[str, Any]) -> Dict[str, Any]:
        risk_score = round(self.rng.random(), 4)
        return {
            "risk_score": risk_score,
            "risk_level": "high" if risk_score > 0.7 else "medium" if risk_score > 0.4 else "low",
            "flags": ["suspicious_ip", "velocity_check"] if risk_score > 0.5 else [],
            "device_fingerprint": {
                "device_id": variables.get("device_id", "unknown_device"),
                "ip_address": variables.get("ip_address", "0.0.0.0"),
            },
            "velocity_checks": {
                "applications_last_24h": self.rng.randint(0, 2),
                "applications_last_7d": self.rng.randint(0, 9),
            },
            "fetched_at": _now(),
        }


class KycServiceSource(DataSourceClient):
    source_type = "kyc_service"
    display_name = "KYC Service"

    async def fetch(self, config: Dict[str, Any], variables: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "identity_verification": {
                "status": "verified" if self.rng.random() > 0.1 else "pending",
                "confidence": round(self.rng.uniform(0.8, 1.0), 3),
                "documents": ["drivers_license", "passport"],
            },
            "address_verification": {
                "status": "verified" if self.rng.random() > 0.2 else "pending",
                "confidence": round(self.rng.uniform(0.7, 1.0), 3),
            },
            "watchlist_check": {"status": "clear", "lists": ["OFAC", "PEP", "sanctions"]},
            "subject": {
                "first_name": variables.get("first_name", ""),
                "last_name": variables.get("last_name", ""),
            },
            "fetched_at": _now(),
        }


class DatabaseSource(DataSourceClient):
    source_type = "database"
    display_name = "Database"

    async def fetch(self, config: Dict[str, Any], variables: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "query": config.get("query", "SELECT * FROM applications"),
            "table": config.get("table", "applications"),
            "results": [
                {
                    "id": variables.get("applicant_id", "app_123"),
                    "status": "pending",
                    "created_at": _now(),
                }
            ],
            "row_count": 1,
            "fetched_at": _now(),
        }


class FileSource(DataSourceClient):
    source_type = "file"
    display_name = "File"

    async def fetch(self, config: Dict[str, Any], variables: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "file_path": config.get("file_path", "/data/applications.json"),
            "format": config.get("format", "json"),
            "data": {"records": [{"id": variables.get("applicant_id", "app_123")}]},
            "size": self.rng.randint(1_000, 10_000),
            "fetched_at": _now(),
        }


class StaticSource(DataSourceClient):
    """Fallback for unknown source types: returns configured default data."""

    source_type = "default"
    display_name = "Static Data"

    async def fetch(self, config: Dict[str, Any], variables: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "source": "default",
            "data": dict(config.get("default_data") or {}),
            "fetched_at": _now(),
        }


SIMULATED_SOURCES = {
    "credit_bureau": CreditBureauSource,
    "income_verification": IncomeVerificationSource,
    "fraud_detection": FraudDetectionSource,
    "kyc_service": KycServiceSource,
    "database": DatabaseSource,
    "file": FileSource,
    "default": StaticSource,
}

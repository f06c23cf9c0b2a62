"""
JSON Schema Contract Validators

Модуль для валидации read-only снапшотов, которые движок отдаёт внешним
коллабораторам (дашборды, keeper-сервисы). Использует библиотеку jsonschema.

Схемы (kinetic_vault/core/contracts/schema/):
- epoch.json
- tranche_state.json
- fee_rates.json
- shield_pool.json
- teleport_pool.json
- ladder_rung.json
- vault_snapshot.json (вложенные секции проверяются своими схемами)
"""

import json
from pathlib import Path
from typing import Any, Dict

import jsonschema
from jsonschema import Draft202012Validator


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """
    Загрузчик JSON Schema файлов.

    Схемы лежат в каталоге schema/ рядом с этим модулем и поставляются
    вместе с пакетом.
    """

    def __init__(self, schema_dir: Path | None = None):
        self._schema_dir = schema_dir or Path(__file__).parent / "schema"
        if not self._schema_dir.exists():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")

        # Кэш загруженных схем
        self._schemas: Dict[str, Dict[str, Any]] = {}

    @property
    def schema_dir(self) -> Path:
        return self._schema_dir

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Загрузка JSON Schema файла.

        Args:
            schema_name: Имя схемы без расширения (например, 'epoch')

        Returns:
            Загруженная схема как dict

        Raises:
            FileNotFoundError: Если файл схемы не найден
            ValueError: Если схема не проходит meta-validation
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)

        # Валидируем саму схему (meta-validation)
        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_name}.json: {e}") from e

        self._schemas[schema_name] = schema
        return schema


# Глобальный экземпляр загрузчика
_SCHEMA_LOADER = SchemaLoader()


# =============================================================================
# CONTRACT VALIDATORS
# =============================================================================


class ContractValidator:
    """
    Базовый класс для валидаторов контрактов.

    Инкапсулирует логику валидации данных против JSON Schema.
    """

    schema_name: str = ""

    def __init__(self, schema_name: str | None = None):
        self.schema_name = schema_name or self.schema_name
        self.schema = _SCHEMA_LOADER.load_schema(self.schema_name)
        self.validator = Draft202012Validator(self.schema)

    def validate(self, data: Dict[str, Any]) -> None:
        """
        Валидация данных против схемы.

        Raises:
            ValidationError: Если данные не соответствуют схеме
        """
        self.validator.validate(data)

    def is_valid(self, data: Dict[str, Any]) -> bool:
        """Проверка валидности данных без exception."""
        return self.validator.is_valid(data)

    def iter_errors(self, data: Dict[str, Any]):
        """Итератор по всем ошибкам валидации."""
        return self.validator.iter_errors(data)


class EpochValidator(ContractValidator):
    schema_name = "epoch"


class TrancheStateValidator(ContractValidator):
    schema_name = "tranche_state"


class FeeRatesValidator(ContractValidator):
    schema_name = "fee_rates"


class ShieldPoolValidator(ContractValidator):
    schema_name = "shield_pool"


class TeleportPoolValidator(ContractValidator):
    schema_name = "teleport_pool"


class LadderRungValidator(ContractValidator):
    schema_name = "ladder_rung"


class VaultSnapshotValidator(ContractValidator):
    """
    Валидатор полного снапшота.

    Помимо собственной схемы проверяет каждую вложенную секцию её схемой.
    """

    schema_name = "vault_snapshot"

    def validate(self, data: Dict[str, Any]) -> None:
        super().validate(data)
        if data["epoch"] is not None:
            EpochValidator().validate(data["epoch"])
        TrancheStateValidator().validate(data["tranches"])
        FeeRatesValidator().validate(data["fee_rates"])
        ShieldPoolValidator().validate(data["shield_pool"])
        TeleportPoolValidator().validate(data["teleport_pool"])
        rung_validator = LadderRungValidator()
        for rung in data["ladder"]:
            rung_validator.validate(rung)

    def is_valid(self, data: Dict[str, Any]) -> bool:
        try:
            self.validate(data)
        except jsonschema.ValidationError:
            return False
        return True


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def validate_epoch(data: Dict[str, Any]) -> None:
    """Валидация снапшота эпохи."""
    EpochValidator().validate(data)


def validate_tranche_state(data: Dict[str, Any]) -> None:
    """Валидация снапшота траншей."""
    TrancheStateValidator().validate(data)


def validate_fee_rates(data: Dict[str, Any]) -> None:
    """Валидация ставок комиссий."""
    FeeRatesValidator().validate(data)


def validate_shield_pool(data: Dict[str, Any]) -> None:
    """Валидация снапшота shield-пула."""
    ShieldPoolValidator().validate(data)


def validate_teleport_pool(data: Dict[str, Any]) -> None:
    """Валидация снапшота teleport-пула."""
    TeleportPoolValidator().validate(data)


def validate_ladder_rung(data: Dict[str, Any]) -> None:
    """Валидация снапшота ступени лестницы."""
    LadderRungValidator().validate(data)


def validate_vault_snapshot(data: Dict[str, Any]) -> None:
    """
    Валидация полного снапшота движка.

    Raises:
        ValidationError: Если данные не соответствуют схеме
    """
    VaultSnapshotValidator().validate(data)

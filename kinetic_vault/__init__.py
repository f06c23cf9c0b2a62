"""
Kinetic Vault — движок двухтраншевого хранилища с адаптивными эпохами.

Подпакеты:
- core: доменные модели, ошибки, fixed-point математика, JSON-контракты
- epochs: мониторинг волатильности и жизненный цикл эпох
- fees: кинетическая кривая комиссий
- tranches: senior/junior леджер и waterfall
- shield: пул страхования просадки (Drawdown Shield)
- teleport: аванс будущей junior-доходности (Yield Teleport)
- ladder: лестница эпох разной длительности
- vault: фасад, связывающий все компоненты в одну транзакцию
"""

__version__ = "0.1.0"

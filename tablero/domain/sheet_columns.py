from __future__ import annotations

ORDER_DATE = "Дата заказа"
ORDER_NUMBER = "Номер заказа"
CUSTOMER_NAME = "Клиент"
AREA = "Площадь"
MILLING_TYPE = "Тип фрезеровки"
STATUS = "Статус"
PLANNED_DATE = "Планируемая дата"
NOTES = "Примечания"
CAD_FILES = "CAD файлы"
PAYMENT = "Оплата"
DELIVERY_DATE = "Дата выдачи"

STATUS_ISSUED = "Выдан"
STATUS_READY = "Готов"

# Orden del menú contextual de propiedades.
PROPERTY_ORDER = (
    "Фрезеровка",
    PAYMENT,
    STATUS,
    CAD_FILES,
    "Материал",
    "Закуп пленки",
    "Распил",
    "Шлифовка",
    "Пленка",
    "Упаковка",
    "Выдан",
)

FALLBACK_FIELD_OPTIONS: dict[str, tuple[str, ...]] = {
    "Фрезеровка": ("Модерн", "Фрезеровка", "Черновой", "Выборка", "Краска"),
    PAYMENT: ("не оплачен", "в долг", "частично", "оплачен", "за счет фирмы"),
    STATUS: (STATUS_READY, STATUS_ISSUED, "Распилен", "-"),
    CAD_FILES: ("Отрисован", "-"),
    "Материал": ("16мм", "18мм", "8мм", "10мм", "ЛДСП"),
    "Закуп пленки": ("Готов", "-"),
    "Распил": ("Готов", "-"),
    "Шлифовка": ("Готов", "-"),
    "Пленка": ("Готов", "-"),
    "Упаковка": ("Готов", "-"),
    "Выдан": ("Готов", "-"),
}


def is_issued(status: object) -> bool:
    return str(status or "").strip().lower() == STATUS_ISSUED.lower()

class FiscalError(Exception):
    """Base class of every error raised by the fiscal engine."""


class InvalidInputError(FiscalError, ValueError):
    pass


class UnknownFiscalYearError(InvalidInputError):
    def __init__(self, year: int, available: list):
        self.year = year
        self.available = available
        super().__init__(f"Aucun barème publié pour {year} (disponibles: {available})")


class RateTableError(FiscalError):
    """Fiscal data file is malformed or incomplete."""


class FranchiseThresholdExceededError(FiscalError):
    """
    Revenue above the micro-entreprise ceiling.

    The regime no longer applies: the caller has to move the business to the
    standard regime, so the engine refuses to compute anything.
    """

    def __init__(self, revenue: float, threshold: float, activity_type: str, year: int):
        self.revenue = revenue
        self.threshold = threshold
        self.activity_type = activity_type
        self.year = year
        super().__init__(
            f"Chiffre d'affaires de {revenue:.2f}€ dépassant le seuil de {threshold:.0f}€ "
            f"pour {activity_type} ({year})"
        )


class DeclarationNotFoundError(FiscalError):
    def __init__(self, declaration_id):
        self.declaration_id = declaration_id
        super().__init__(f"Déclaration {declaration_id} introuvable")


class InvalidDeclarationStateError(FiscalError):
    def __init__(self, declaration_id, current: str, target: str):
        self.declaration_id = declaration_id
        self.current = current
        self.target = target
        super().__init__(
            f"Déclaration {declaration_id}: transition {current} -> {target} impossible"
        )


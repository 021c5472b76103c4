"""Avaliação mínima de expressões ``key``/``condition``/``unless``.

Não é uma linguagem de expressões: apenas caminhos pontuados sobre as
variáveis da invocação, opcionalmente negados com ``not``.

Exemplos:
    - ``"user_id"``: argumento nomeado
    - ``"user.id"``: atributo (ou item de mapping) de um argumento
    - ``"not result.active"``: negação do atributo do valor retornado
"""

from collections.abc import Mapping
from typing import Any

from .constants import ERROR_EMPTY_EXPRESSION, ERROR_UNKNOWN_VARIABLE
from .exceptions import CacheConfigurationError

_NOT_PREFIX = "not "


class SimpleExpressionEvaluator:
    """Avaliador padrão de expressões."""

    def evaluate(self, expression: str, variables: Mapping[str, Any]) -> Any:
        """Avalia a expressão contra as variáveis.

        Raises:
            CacheConfigurationError: Se a expressão for vazia ou referenciar
                uma variável inexistente
        """
        expression = expression.strip()
        if expression.startswith(_NOT_PREFIX):
            return not self.evaluate(expression[len(_NOT_PREFIX) :], variables)
        if not expression:
            raise CacheConfigurationError(ERROR_EMPTY_EXPRESSION)

        name, *path = expression.split(".")
        if name not in variables:
            raise CacheConfigurationError(ERROR_UNKNOWN_VARIABLE.format(name=name, expression=expression))

        value = variables[name]
        for attribute in path:
            value = value[attribute] if isinstance(value, Mapping) else getattr(value, attribute)
        return value

"""
Update-rule public API.

Importing this package registers the built-in rules (``SGD``, ``NESTEROV``,
``ADAGRAD``, ``RMSPROP``, ``ADADELTA``) via import side effects.
"""

from ._sgd import *
from ._adaptive import *
from ._base import UpdateRule, available_update_rules, register_update_rule, update_rule_class

__all__ = [
    UpdateRule.__name__,
    available_update_rules.__name__,
    register_update_rule.__name__,
    update_rule_class.__name__,
]

from . import validate, delete

__all__ = ['validate', 'delete']

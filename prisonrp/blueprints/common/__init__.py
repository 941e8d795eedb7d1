from .request_data import acting_user, first_of, int_arg, json_body

__all__ = ['acting_user', 'first_of', 'int_arg', 'json_body']

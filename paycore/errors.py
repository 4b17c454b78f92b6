class PayloadError(ValueError):
    """Ошибка сборки Pix-кода: вход нельзя закодировать корректно"""

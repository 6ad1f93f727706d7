"""Движок тем: пакеты, установка в магазины, рабочие копии и отдача файлов."""

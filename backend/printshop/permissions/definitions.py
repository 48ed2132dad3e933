# Overview: Module definitions for navigation and admin screens.
# Each module is defined as: (module, label, description)

from .categories import Module


MODULE_DEFINITIONS = [
    (Module.CADASTRO, "Cadastro", "Customers, suppliers, users and products"),
    (Module.VENDAS, "Vendas", "Orders, production board and quality gate"),
    (Module.FINANCEIRO, "Financeiro", "Receivables and payment configuration"),
    (Module.ESTOQUE, "Estoque", "Blank garments and supplies"),
    (Module.RELATORIOS, "Relatórios", "Sales, production and delivery reports"),
    (Module.UTILIDADES, "Utilidades", "Messaging, backups and system logs"),
    (Module.MEUS_PEDIDOS, "Meus Pedidos", "Customer self-service order tracking"),
]

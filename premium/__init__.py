"""Premium-подсистема: статус по NodeSet, привязка профилей, реферальное дерево."""

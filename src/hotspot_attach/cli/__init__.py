"""hotspot-attach CLI 包。"""

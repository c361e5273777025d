"""CallShield: call risk resolution engine"""

"""Runtime package for the LAN chat peer.

Módulos:
- ``config`` carrega parâmetros de arquivo JSON e variáveis de ambiente.
- ``codec`` serializa anúncios de descoberta e mensagens (JSON por linha).
- ``peer_table`` e ``conversation`` modelam o estado compartilhado.
- ``discovery`` anuncia e escuta peers via broadcast UDP.
- ``peer_server``, ``peer_connection`` e ``message_router`` cuidam do TCP.
- ``lan_transport`` e ``link_transport`` implementam os dois transportes.
- ``selector`` escolhe o transporte ativo e expõe o estado observável.
- ``cli`` expõe a interface interativa de comandos.
"""

__version__ = "0.1.0"
